"""Spaced-repetition flashcard study core."""
