"""Pure domain layer: money arithmetic, status vocabularies, workflows, policies."""
