"""MapReduce coordinator, worker, sequential runner and application lookup."""