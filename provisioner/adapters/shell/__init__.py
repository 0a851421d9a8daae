"""Shell-level bindings: subprocess runner, files, services, firewall, fetch."""
