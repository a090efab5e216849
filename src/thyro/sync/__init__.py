"""Remote sync: gateway, task descriptors, offline queue, reachability."""
