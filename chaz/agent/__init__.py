"""Agent core: context assembly, roles, routing and command dispatch."""
