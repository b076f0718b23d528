"""HTTP transport adapters implementing the `HttpTransport` port."""
