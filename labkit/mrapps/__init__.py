"""MapReduce applications, each providing map_func and reduce_func."""