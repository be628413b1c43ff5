"""
Generative model executors.
"""
