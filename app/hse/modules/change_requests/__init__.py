"""
Change Request Manager: post-publication revision proposals that, once approved, open a new draft revision.
"""
