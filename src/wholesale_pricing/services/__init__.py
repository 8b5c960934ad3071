"""Services subpackage - repositories and collaborator lookups."""
