"""Domain core: models, identity, aggregation, gamification and the vision gateway."""
