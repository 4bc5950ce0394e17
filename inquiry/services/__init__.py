"""Business logic: ratings, generation, explanations, images, graphs."""
