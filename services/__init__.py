"""Domain services; each one works on the AsyncSession handed in by the caller and never commits."""
