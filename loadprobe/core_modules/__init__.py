"""Built-in modules loaded before any third party module."""
