"""Repository-level test packages (property suites)."""
