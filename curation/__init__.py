"""Lesson library curation tools: duplicate detection and resolution."""
