"""Medical appointment booking client (patients and doctors)."""
