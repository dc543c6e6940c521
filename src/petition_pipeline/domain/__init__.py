"""Adapter-free domain layer: value types, ports and preprocessing stages."""
