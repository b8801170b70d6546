"""Configuration, exceptions and cross-cutting helpers."""
