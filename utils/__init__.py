"""Shared helpers for the raffle bot"""
