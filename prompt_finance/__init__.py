"""
Prompt Finance - Source Package

A command-line style personal finance assistant: every change to the
budget is typed as a short command into a single command bar.

DESIGN PRINCIPLES:
1. Grammar first → AI only when the grammar gives up
2. Figures are computed, never generated
3. Simulations never reach storage
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Prompt Finance Team"
