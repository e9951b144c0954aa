"""promptgen-auth: authentication and session issuance for the PromptGen desktop backend."""
