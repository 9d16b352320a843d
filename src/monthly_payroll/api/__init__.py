"""HTTP API for the monthly payroll engine."""
