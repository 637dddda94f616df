"""Condominium billing: cross-module payment distribution and reconciliation."""
