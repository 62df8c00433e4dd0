"""Infrastructure: storage backends and the stream bridge over them."""
