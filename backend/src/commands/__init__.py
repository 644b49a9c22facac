"""Console commands (``bizflow ...``)"""
