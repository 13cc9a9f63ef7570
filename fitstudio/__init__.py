"""Fitness studio term scheduling and booking service."""
