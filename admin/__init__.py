# -*- coding: utf-8 -*-
"""Administration commands for backup sets and the saved run state."""
