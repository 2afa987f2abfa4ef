"""Leaf utilities: hashing and unload coordination."""
