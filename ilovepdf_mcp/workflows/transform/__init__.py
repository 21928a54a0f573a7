"""Remote transform workflow: start -> upload -> process -> download/keep -> delete."""
