"""User interface: mode controller and Textual widgets."""
