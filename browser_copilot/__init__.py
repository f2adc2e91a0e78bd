"""
Browser Copilot - a language model driving a browser, with a human in the loop.

Runs a bounded agentic loop: the model proposes browser actions, a safety
classifier gates them, and Playwright executes them against the page.
"""

__version__ = "0.1.0"
__author__ = "Browser Copilot Contributors"
