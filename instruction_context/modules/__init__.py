"""
Instruction modules: catalog, selection and prompt composition.
"""
