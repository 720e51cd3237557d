"""Script modules bundled with the runtime, resolved before user modules."""
