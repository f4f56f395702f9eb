"""Descriptor-driven environment composition and resolution engine."""
