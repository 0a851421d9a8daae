"""
Host provisioner — idempotent installs of infrastructure products.

Detects the local platform, plans an ordered list of idempotent steps
for a product (nginx, Docker Engine, Grafana observability stack),
executes them through the native package manager, verifies the result
and reports every outcome.
"""

__version__ = "0.1.0"
