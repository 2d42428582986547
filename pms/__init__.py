"""Ticket lifecycle engine for the PMS service."""
