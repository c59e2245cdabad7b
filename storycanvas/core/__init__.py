"""
Core Canvas Logic and Job Tracking
==================================

This package contains the canvas graph engine (cards, storyboards,
connection rules, playlist resolution, playback, reconciliation) and the
asynchronous task scheduler that follows remote workflow runs.
"""
