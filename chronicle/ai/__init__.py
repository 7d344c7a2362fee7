"""Content synthesis on top of generative model providers."""
