"""
Expense AI — receipt extraction and financial insight pipeline.
"""
