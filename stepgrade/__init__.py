"""Answer evaluation and grading engine for scaffolded worksheet questions."""
