"""Services package for revision planning, leaderboards and background scheduling."""
