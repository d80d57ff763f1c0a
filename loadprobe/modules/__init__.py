"""Default modules, loaded when no explicit module list is given."""
