"""Pipeline services: stages, executor, fan-out, cleanup and collaborators."""
