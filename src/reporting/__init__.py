"""Progress reporting for manifest runs."""
