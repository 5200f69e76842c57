"""Services: host matching, proxy links, URL rewriting and message storage."""
