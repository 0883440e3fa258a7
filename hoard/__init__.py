"""hoard — per-project dependency isolation.

hoard records the exact packages a project needs, keeps them in a private
project-local library, and reconciles that library against a lock record so
the dependency state can be reproduced on any machine.
"""

__version__ = "0.3.0"
