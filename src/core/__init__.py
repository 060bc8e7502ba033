"""
Core Package

Configuration, data models, state persistence, logging and the exception
hierarchy shared by every lab operation.
"""
