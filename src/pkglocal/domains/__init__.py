"""Domain-driven bounded contexts for pkglocal."""
