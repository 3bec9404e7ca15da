"""Concrete adapters implementing the interfaces in :mod:`docpod.interfaces`."""
