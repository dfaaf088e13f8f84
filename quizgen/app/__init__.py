"""FastAPI application package for quizgen."""
