"""quizgen: quiz generation service with usage metering."""
