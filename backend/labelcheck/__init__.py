"""
LabelCheck: regulatory ingredient compliance for food and supplement labels.
"""
__version__ = "0.1.0"
