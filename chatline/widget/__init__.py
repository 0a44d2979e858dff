"""Widget presentation state, preferences and the visitor identity gate."""
