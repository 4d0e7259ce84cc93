"""An in-memory key/value server with at-most-once writes, its clerk and a test harness."""