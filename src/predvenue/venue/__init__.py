from predvenue.venue.manager import VenueManager

__all__ = ["VenueManager"]
