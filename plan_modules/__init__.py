"""
Plan modules: business workflows built on ``plan_kernel``.

quarantine    fund reservations against budget lines
"""
