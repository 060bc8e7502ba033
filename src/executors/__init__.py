"""
Executors Package

External command execution used by all lab operations:
- Command executor interface and its subprocess implementation
- Cooperative cancellation token
"""
