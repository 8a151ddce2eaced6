"""Pure domain layer: value types, state machines and policies. Zero I/O."""
