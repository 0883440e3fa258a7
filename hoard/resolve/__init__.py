"""Resolution — expand a project's root package names into a dependency closure."""
