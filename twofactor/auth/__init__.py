"""Second-factor primitives and the two-factor service facade."""
