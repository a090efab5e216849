"""Reactive, owner-scoped entity stores."""
