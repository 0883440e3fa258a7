"""Core value types: package records, versions, and change plans."""
