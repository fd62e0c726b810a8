"""Recurring household task scheduling, completion verification and points engine."""
