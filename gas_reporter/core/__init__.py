"""Ambient concerns: settings, logging, errors, wire types and gas arithmetic."""
