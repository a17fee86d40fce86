"""Streamlit page modules for the Fleet Operations Management System.

Each module exposes a ``render()`` function; ``fleet_app_ui`` picks the one
to call from the sidebar selection.
"""
