"""SOP-guided chat backend."""
