"""Describes the BiteNote domain. Centres around the `RecipeQuery`.

Why is this hard?

- Filtering is done in SQL, so every user supplied value must be bound,
  never pasted into the query text.
- Include and ban sets must never disagree about an id.
- A recipe and its two association tables change together or not at all.

The catalog (ingredients, utensils, measurement types) is fixed at seed time,
which keeps most of the rest simple.
"""
