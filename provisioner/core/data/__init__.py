"""Static recipe data for installable products."""
