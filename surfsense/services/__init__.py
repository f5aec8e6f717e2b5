"""External collaborators: local store, remote session store, geolocation."""
