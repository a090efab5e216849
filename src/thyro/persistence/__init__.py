"""Local persistence for records and auxiliary lists."""
