"""Lock file — the persisted record of a project's exact package set."""
