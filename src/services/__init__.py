"""Billing services: cycle engine, consumer persistence and support modules."""
